"""Settings, structured logging and money helpers shared across the storefront."""
