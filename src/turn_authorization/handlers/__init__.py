"""Authorization handler implementations."""
