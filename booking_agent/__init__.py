"""Booking Agent"""
