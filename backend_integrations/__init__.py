"""Backend integrations"""
