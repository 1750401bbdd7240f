"""Infrastructure layer: persistence adaptors and the webhook HTTP client."""
