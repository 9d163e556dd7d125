"""GitHub App webhook receiver.

This package authenticates inbound GitHub webhook deliveries and dispatches
them to business handlers, providing:
- Webhook signature verification (HMAC-SHA256)
- App assertion (JWT) signing with the App's private key
- Installation access token exchange
- Event routing by event type and action
"""
