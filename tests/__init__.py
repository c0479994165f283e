"""Test package"""
