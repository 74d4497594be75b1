"""
                Dormside Storefront

Backend for a small campus food-ordering storefront: menu, cart checkout,
card and cash payments, and an admin API for orders, menu and store status.
"""

__version__ = "1.0.0"
