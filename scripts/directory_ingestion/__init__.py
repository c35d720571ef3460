"""Entra ID directory ingestion.

Connects to Microsoft Graph with certificate credentials, retrieves licensed
member users with pagination and throttling backoff, and submits them as one
full-refresh snapshot to an Azure Log Analytics custom table.
"""
