"""fn-builder: build framework projects into serverless function bundles."""

__version__ = "0.1.0"
