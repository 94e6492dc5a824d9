"""Finance: accounts, categories, counterparties, projects, transactions, reports."""
