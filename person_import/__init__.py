"""CSV person records -> PostgreSQL streaming importer."""

__version__ = "0.1.0"
