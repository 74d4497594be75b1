"""
                        Services Module

Business logic for the storefront. External collaborators follow the
hybrid pattern: a Mock implementation for development and a Real one for
staging/production, selected by ENV_MODE.

Services:
    - storage: order store and store-status gate (file, postgres, kv)
    - payment: Stripe payment intents
    - notifications: receipt emails via SendGrid
    - orders: the order lifecycle controller
    - pricing / menu: cart pricing and the editable menu
"""
