# LexLedger - HTTP Routes
