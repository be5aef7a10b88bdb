"""
Test suite for the CareBook appointment API.

Contains integration tests driven through the FastAPI test client.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
