"""Coupons module"""
