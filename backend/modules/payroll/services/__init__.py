"""Payroll services module."""
