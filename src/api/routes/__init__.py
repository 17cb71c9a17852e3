"""Route handlers served behind the request pipeline."""
