"""Device access, screenshots, instances and supervision"""
