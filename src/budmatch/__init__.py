"""BudMatch: a marketplace for reuniting single earbuds with their other half."""

__version__ = "0.1.0"
