"""Domain audit - scored DNS, SSL, security, SEO and business reports for web agencies."""

__version__ = "1.0.0"
