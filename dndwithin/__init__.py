"""DND Within account, credential and email dispatch service."""
