"""Village Map - Services"""
