"""Storage layer: slot-based vector file, record metadata and slot freelist."""