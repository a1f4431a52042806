"""Configuration, logging, persistence and error types shared by the service."""
