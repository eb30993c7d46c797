"""Conversational front-end routing chat messages to answers or expert tickets."""
