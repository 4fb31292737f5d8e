"""
Imports app

Bulk load of products and their opening stock from Excel/CSV inventory
sheets: header matching, row validation with preview, execution and the
downloadable template.
"""
