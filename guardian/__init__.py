"""Guardian: real-time phishing and fraud risk assessment for web pages."""

__version__ = "0.1.0"
