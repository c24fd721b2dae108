"""
Companies module.

- Company CRUD (list with search + pagination, detail with contacts/assignments)
- Creator is assigned as primary owner in the same transaction
- Delete is logical and admin-only
"""
