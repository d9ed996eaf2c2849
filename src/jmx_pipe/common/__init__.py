"""Configuration, logging, validation and exceptions shared by the pipe."""
