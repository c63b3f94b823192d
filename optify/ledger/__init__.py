"""
Betting-operation ledger: transactions, profit rules and the per-user rollup.

Layout:
- models / money: transaction shape and centavo arithmetic
- classify / profit / financial_state: pure, Firestore-free calculations
- firestore / issues: path helpers, load/store and daily summary repair
"""
