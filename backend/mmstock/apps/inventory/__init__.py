"""
Inventory app

Responsible for:
- Stock movements (entrada / transferencia / saida) and their cancellation
- Stock levels per product and parque, kept in step with every movement
- Stock queries and summaries (per product, per parque, low stock)
"""
