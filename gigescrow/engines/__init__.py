"""
Engines - adapters for the external encryption and storage services.
"""
