"""
Contacts module: people at a company, plus staff assignments (company_assignments).
Edit rights follow the parent company.
"""
