"""Atelier storefront web application."""
