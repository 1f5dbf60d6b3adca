"""CareerOS expert chat relay service"""
