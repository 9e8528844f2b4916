"""Configuration, logging, errors and shared recognition utilities"""
