"""Checkout module"""
