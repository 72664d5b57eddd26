"""Email form gateway: validates contact-form posts and mails the result."""

__version__ = "0.1.0"
