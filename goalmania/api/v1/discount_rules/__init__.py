"""Discount rules module"""
