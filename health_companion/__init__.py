"""
Health Companion - Medical Report Locker & Hindi Symptom Assistant

Lets a signed-in user upload medical report files, keeps their metadata,
and talks with a generative model (in Hindi) about symptoms using the
uploaded reports and past conversation as context.

IMPORTANT: The assistant is NOT a doctor and never replaces one.
"""

__version__ = "1.0.0"
__author__ = "Health Companion Team"
