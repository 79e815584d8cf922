"""Shared models and utilities"""
