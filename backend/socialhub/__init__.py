"""SocialHub API backend."""
