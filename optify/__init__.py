"""
optify package

Financial core for the Optify dashboard: transaction classification, profit
aggregation, and the per-user global financial state (build, persist, read).
"""
