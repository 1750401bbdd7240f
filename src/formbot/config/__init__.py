"""Configuration: pydantic section models, TOML/env settings, logging setup."""
