x = 2.0
y = x * 3
print(y)
