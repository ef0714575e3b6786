"""
API routes.

This module organizes routes into:
- sync: scheduled and manual market sync triggers, sync health
- markets: derived markets and same-game parlay candidates
"""
