"""
Map instances: one coordinator per configured map, fed from its files and the marker API.
"""
