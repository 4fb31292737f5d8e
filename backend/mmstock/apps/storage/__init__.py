"""Local file storage for avatars and product photos, one folder per company and bucket."""
