"""Serverless entry points (AWS Lambda, GCP Cloud Run Jobs)."""
