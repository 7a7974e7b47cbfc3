"""MealHop recommendation service."""
