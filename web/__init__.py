"""Storefront JSON API over the catalog toolkit."""
