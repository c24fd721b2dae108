"""
CRM resources: companies, contacts (with staff assignments), activities, users.

Each resource owns models/service/routes. Services take an explicit Caller and a Session;
routes only parse the request, call the service and commit.
"""
