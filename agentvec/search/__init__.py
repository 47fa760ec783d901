"""Scalar, signed and product quantizers for approximate distance computation."""