"""Outbound card content and the structured payloads forms submit back."""
