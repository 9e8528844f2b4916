"""Perception and task controller modules"""
