"""Backend package: DB models, tenancy, pipelines, APIs.

This package records tenant package catalogs and inbound emails, matches
each email's extracted trip requirements against the tenant's active
packages, and persists the ranked results on the email record.
"""
