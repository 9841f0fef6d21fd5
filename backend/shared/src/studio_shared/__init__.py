"""Shared settlement domain for the studio booking platform.

Contains the models, services and utilities used by the payout
aggregator and the Stripe webhook reconciler.
"""
