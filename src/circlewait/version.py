VERSION = "0.32"
