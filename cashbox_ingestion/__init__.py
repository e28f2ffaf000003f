"""
cashbox_ingestion -- Bank-statement ingestion.

Reads an exported bank/POS statement (XLSX or CSV), locates its header row,
maps columns by their Arabic or English labels and totals the inbound
amounts per payment method after a cutoff time.

Architecture:
    cashbox_ingestion/ is a top-level package.  Nothing in cashbox_kernel/
    imports from ingestion; cashbox_services applies a ParseResult to a row.
"""
