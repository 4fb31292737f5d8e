"""Excel exports of stock, movements and products, styled with the company colour."""
