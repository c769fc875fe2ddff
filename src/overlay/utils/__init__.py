"""Small helpers shared across the overlay package."""
