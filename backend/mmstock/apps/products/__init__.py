"""Products app: IDMM-identified stone products, their pargas and QR codes."""
