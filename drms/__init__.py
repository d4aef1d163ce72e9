"""Device repair case service: scheduled SLA monitoring and schema migrations."""

__version__ = "1.0.0"
