from .estimators import ConstantRegressor, ConstantClassifier, GLMSL
