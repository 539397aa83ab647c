"""Request controllers for the Herit API."""
