"""Village Map - Backend for the community village map"""
