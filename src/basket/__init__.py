"""Product identity resolution for grocery receipts."""
