# LexLedger - practice management for law firms
