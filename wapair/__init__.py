"""wapair: WhatsApp device linking service with credential archival."""

__version__ = "0.1.0"
