"""Configuration module - re-exports all config values."""
from .paths import *
from .camera import *
from .scoring import *
