"""AI File Analyzer: extract an editable table from a PDF, spreadsheet or image and chat about it."""
