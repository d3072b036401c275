"""Shared DynamoDB utilities.

This package centralizes:
- boto3 client/resource configuration
- retry/backoff policy
- cursor pagination token encoding/decoding
- typed errors for consistent HTTP problem responses
- conditional-write and transactional helpers

Offers, co-investment opportunities, co-investment offers and their supporting
records all live in one table (single-table design, `pk`/`sk` plus GSI1..GSI3).
"""
